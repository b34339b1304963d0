"""
Shiro Tactician - Rules Engine for Shiro Pro Squads

Turns free-form Japanese ability text into structured buffs, folds a
squad's buffs into final stats, and resolves a unit's damage and DPS.
"""

__version__ = "0.1.0"
