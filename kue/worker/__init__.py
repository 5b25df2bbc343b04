"""
Worker module.
Contains the polling worker and the job handler registry.
"""
