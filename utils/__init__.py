"""Utility modules for the CCA contribution tracker."""
