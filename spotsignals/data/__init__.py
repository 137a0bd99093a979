# Market data collaborators
