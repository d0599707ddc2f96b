"""Small helpers shared by services and routers."""
