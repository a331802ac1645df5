"""Saki control plane: hosts container apps on Kubernetes with the cluster as the system of record."""
