"""Forwarding-table programming for pod interfaces and load-balanced services."""