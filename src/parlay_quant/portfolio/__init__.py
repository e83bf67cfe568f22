"""
Portfolio components: covariance and expected-return estimation, Monte Carlo
simulation, frontier optimization and the post-optimization risk overlay.
"""
