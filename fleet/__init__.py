"""
Fleet-side runtime for the dropoff workflow: task stores, the driver loop
that keeps active tasks moving, and the administrative CLI.
"""
