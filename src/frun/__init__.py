"""Command line front end for fence-runner."""
