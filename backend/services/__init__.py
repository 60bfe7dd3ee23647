"""Work Order Hub - Services"""
