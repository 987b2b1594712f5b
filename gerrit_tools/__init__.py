"""gerrit_tools - Console tools for Jenkins jobs triggered by Gerrit
"""
