"""
Consumer side: persisted state, poll client and the poll scheduler.
"""
