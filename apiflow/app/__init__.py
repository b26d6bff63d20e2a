"""
apiflow Gateway Service

FastAPI application that resolves projects and serves their flows.
"""
