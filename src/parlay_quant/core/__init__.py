"""
Parlay Quant Core

Data model and the evaluation pipeline that ties the betting and portfolio
components together.
"""
