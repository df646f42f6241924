"""Core request resolution engine.

This package holds the response cache, the resolver interpreting data
source expressions against it, the asynchronous convergence loop driving
a site to completion, and the assembly of the build output.

The primary public entry point is `Convergence`, which resolves every
tracked item of a site through repeated host round trips.
"""

from .cache import PENDING, Response, ResponseCache
from .convergence import Convergence, build, converge
from .output import BuildOutput, PagePayload, Payload
from .resolver import Complete, Failure, Incomplete, Status, resolve

__all__ = (
    'PENDING',
    'BuildOutput',
    'Complete',
    'Convergence',
    'Failure',
    'Incomplete',
    'PagePayload',
    'Payload',
    'Response',
    'ResponseCache',
    'Status',
    'build',
    'converge',
    'resolve',
)
