"""Task time accounting, statistics and storage."""
