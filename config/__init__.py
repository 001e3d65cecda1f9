"""
Configuration and Persistence

Settings loading, data models and the JSON state store.
"""
