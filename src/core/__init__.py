"""Core domain package for vkrelay.

Core contains feed extraction, the post lifecycle and delivery orchestration
without any VK, Telegram or storage-specific code, keeping the business logic
portable.
"""
