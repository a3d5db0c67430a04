"""Password hashing"""
