"""Price lists, overrides and price resolution"""
