"""
SolveNote - Notes With AI Suggestions
=====================================

Backend for the SolveNote note-taking app.

Usage model:
- Every user gets a small daily allowance of suggestion credits
- One credit is spent per suggestion request
- The allowance refills lazily once per calendar day
- A completed Stripe checkout upgrades the user to unlimited

The credit store (MongoDB) is authoritative; clients only cache what the
credits endpoints return.
"""

__version__ = "1.0.0"
__product__ = "SolveNote"
