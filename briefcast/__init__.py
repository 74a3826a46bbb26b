"""
Briefcast - multi-speaker podcast generation from completed reports.
"""
