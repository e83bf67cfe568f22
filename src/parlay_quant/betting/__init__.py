"""
Parlay betting components: odds arithmetic, Kelly staking, leg correlation,
risk assessment and recommendations.
"""
