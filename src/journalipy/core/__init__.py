"""Core domain: models, ports, dispatch, templates and metric evaluation."""
