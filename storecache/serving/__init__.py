"""
Serving Module

Read-side queries, response cache and the HTTP API.
"""
