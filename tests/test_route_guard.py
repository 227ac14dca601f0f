"""Tests for route guarding, logout and platform switching."""

from migration_hub.guard.route_guard import (
  LOGIN_LOCATION,
  Allow,
  RedirectTo,
  guard_route,
  logout,
  switch_platform
)
from migration_hub.session.models import Entity, PlatformIdentity, SelectionLevel


def test_unauthenticated_visitor_is_sent_to_login(session_store):
  decision = guard_route(session_store, '/tableau/workbooks')

  assert isinstance(decision, RedirectTo)
  assert not decision.allowed
  assert decision.as_dict() == {'redirect_to': LOGIN_LOCATION, 'reason': 'unauthenticated', 'next': '/tableau/workbooks'}


def test_authenticated_visitor_is_allowed(tableau_session):
  decision = guard_route(tableau_session, '/tableau/workbooks')

  assert decision == Allow(platform=PlatformIdentity.TABLEAU)
  assert decision.allowed


def test_matching_platform_requirement_is_allowed(tableau_session):
  assert isinstance(guard_route(tableau_session, required_platform='tableau'), Allow)


def test_wrong_platform_is_redirected(tableau_session):
  decision = guard_route(tableau_session, '/mstr/reports', required_platform=PlatformIdentity.MICROSTRATEGY)

  assert isinstance(decision, RedirectTo)
  assert decision.reason == 'wrong_platform'
  assert decision.next == '/mstr/reports'


def test_logout_clears_session_and_redirects(tableau_session):
  tableau_session.set_selection(SelectionLevel.PROJECT, Entity(id='p1', name='Finance'))

  decision = logout(tableau_session)

  assert decision.location == LOGIN_LOCATION
  assert decision.reason == 'logged_out'
  assert tableau_session.get_session() is None
  assert tableau_session.get_selection(SelectionLevel.PROJECT) is None
  assert isinstance(guard_route(tableau_session, '/home'), RedirectTo)


def test_logout_without_session_is_harmless(session_store):
  assert logout(session_store).reason == 'logged_out'
  assert session_store.get_session() is None


def test_switch_platform_drops_old_context(tableau_session):
  tableau_session.set_selection(SelectionLevel.WORKBOOK, Entity(id='w1', name='Sales'))

  decision = switch_platform(tableau_session, '/mstr')

  assert decision.as_dict() == {'redirect_to': LOGIN_LOCATION, 'reason': 'platform_switch', 'next': '/mstr'}
  assert tableau_session.get_session() is None
  assert tableau_session.get_selection(SelectionLevel.WORKBOOK) is None
