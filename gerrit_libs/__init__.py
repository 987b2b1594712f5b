"""gerrit_libs - Libraries for Jenkins jobs triggered by Gerrit
"""
