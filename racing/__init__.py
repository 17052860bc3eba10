"""
Ghost racing: replay of a recorded route and the per-run control loop.
"""
