"""
Audio and haptic feedback for ghost races.
"""
