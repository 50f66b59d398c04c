from .guard import SpamGuard, SpamLimits, spam_guard

__all__ = ["SpamGuard", "SpamLimits", "spam_guard"]
