"""
Storage abstraction layer.

One ``StorageService`` facade over interchangeable providers: a relational
backend for servers, an embedded versioned object database for clients and a
flat key-value fallback. ``bootstrap`` picks the provider for the running
environment.
"""
