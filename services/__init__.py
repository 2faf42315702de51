# Services Module for Encore Platform
# Contains the funding business logic; routers stay thin
