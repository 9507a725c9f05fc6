"""Write-side services.  Every service flushes within the caller's transaction and never commits."""
