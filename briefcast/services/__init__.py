"""
Podcast generation services.
"""
