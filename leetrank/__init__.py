"""LeetCode global ranking synchronization."""
