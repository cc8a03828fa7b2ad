"""
Remote storage backends
"""
