"""
Configuration, command line interface and Planning Center response models.
"""
