"""
api_operator/cluster — capability interfaces and their production adapters.

The control plane depends only on interfaces.py; the adapters
(kubernetes_client.py, s3.py) are wired in by OperatorService.from_environment.
"""
