"""Clients for the external systems a build touches: git, Docker, Kubernetes."""
