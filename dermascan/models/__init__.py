"""
Data model and session state machine.
"""
