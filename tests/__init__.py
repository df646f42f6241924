"""Test suite for the sitedata package.

This package contains unit and integration tests validating request
hashing and masking, decoders, data source resolution, the convergence
loop, glob matching, host executors and the command-line interface.
"""
