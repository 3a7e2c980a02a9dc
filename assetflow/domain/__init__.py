"""Domain layer - models, enums, errors and lifecycle rules"""
