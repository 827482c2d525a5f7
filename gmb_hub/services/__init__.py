"""Business logic for GMB sync, replies and dashboard analytics"""
