"""Application package for the evaluation backend.

Subjects and their scored Competencies are exposed over a small REST API.
The package is split the usual way: models, repositories, services and
the FastAPI controllers in `main`. `client` holds the API consumer used by
front ends and scripts.
"""
