"""ERP price list synchronization: import jobs, delta continuation and scheduling"""
