"""Maintenance scripts: seed a demo tenant and validate stored templates (run with python -m scripts.<name>)"""
