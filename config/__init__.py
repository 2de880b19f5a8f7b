"""Configuration for the CCA contribution tracker."""
