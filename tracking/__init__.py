"""
Live GPS tracking: route model, geo math and location sampling.
"""
