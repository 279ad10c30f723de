"""Persistent JSON-backed stores for endpoints, services and policies."""