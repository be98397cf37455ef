"""
Main Layer

Entry points (API and worker), settings and the dependency container.
"""
