"""Account hooks, instance methods and statics"""
