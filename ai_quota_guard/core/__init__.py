"""
Core modules for AI Quota Guard.

This package contains the metering core: quota policy, admission control,
usage recording, the account state machine and administrative actions.
"""
