"""change_report.py - Human readable reports about Gerrit changes
"""
from jinja2 import Environment, PackageLoader

_jinja_env = None


def _get_jinja_env():
    global _jinja_env
    if _jinja_env is None:
        _jinja_env = Environment(loader=PackageLoader('gerrit_libs'))
    return _jinja_env


def render_change_summary(change):
    """Render a text summary of a change and its current patchset

    :param GerritChangeInfo change: The change to describe

    :rtype: str
    """
    tmpl = _get_jinja_env().get_template('change-summary.txt.j2')
    return tmpl.render(change=change)
