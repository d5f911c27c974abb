"""
Services layer.
"""
