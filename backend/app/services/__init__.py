"""Authentication and session-integrity services"""
