"""
modules/planning package — matrix, distribution, ordering and synthesis
stages of one optimization run.
"""
