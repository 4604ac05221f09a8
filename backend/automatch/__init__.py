"""
AutoMatch - candidate/job matching with safe auto-apply

1. Embeds candidate profiles and job postings
2. Scores candidate/job pairs (semantic similarity + rule-based fit)
3. Records every evaluated pair so it is not re-scored until the profile changes
4. Auto-applies on the candidate's behalf within their threshold and daily cap
"""

__version__ = "1.0.0"
