"""
Wizard core services and the backends behind the edge proxy
"""
