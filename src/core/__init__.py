"""Core domain package for the topic monitor.

Core contains scheduling, classification, and cycle orchestration without any
Mattermost, Anthropic, or filesystem-specific code, keeping the business logic
portable.
"""
