"""
HLS delivery gateway
"""
