"""
Intake pipeline stages: anti-spam rules and moderation adjudication.
"""
