def salutation():
    return "Hello"
