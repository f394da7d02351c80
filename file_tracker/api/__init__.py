"""HTTP API for File Tracker."""
