"""
PharmIA - Backend (memofiches, webinaires, commandes)
"""
