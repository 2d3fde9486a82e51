"""
Helpers shared by the agent and events Lambdas.
"""
