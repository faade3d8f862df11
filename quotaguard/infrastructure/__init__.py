"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (HTTP APIs, configuration
files, the console) and provides the resilience services.
"""
