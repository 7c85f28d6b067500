"""Tests for CodeRepository and TokenRepository atomic operations."""

from datetime import UTC, datetime

from hbank.models import CodeKind, TokenKind
from hbank.repositories import CodeRepository, TokenRepository

EXPIRES = datetime(2030, 1, 1, tzinfo=UTC)


class TestCodeRepository:
    """Test cases for single-use codes."""

    def test_replace_keeps_one_code_per_kind(self, db, make_user):
        user = make_user()
        repo = CodeRepository(db)

        repo.replace(user.id, CodeKind.CONFIRM_EMAIL, "a" * 64, EXPIRES)
        repo.replace(user.id, CodeKind.CONFIRM_EMAIL, "b" * 64, EXPIRES)
        repo.replace(user.id, CodeKind.RESET_PASSWORD, "c" * 64, EXPIRES)
        db.commit()

        assert repo.find(user.id, CodeKind.CONFIRM_EMAIL).code_hash == "b" * 64
        assert repo.find(user.id, CodeKind.RESET_PASSWORD).code_hash == "c" * 64

    def test_replace_stores_payload(self, db, make_user):
        user = make_user()
        repo = CodeRepository(db)

        repo.replace(user.id, CodeKind.CHANGE_EMAIL, "a" * 64, EXPIRES, payload="new@example.com")
        db.commit()

        assert repo.find(user.id, CodeKind.CHANGE_EMAIL).payload == "new@example.com"

    def test_consume_succeeds_once(self, db, make_user):
        user = make_user()
        repo = CodeRepository(db)
        code = repo.replace(user.id, CodeKind.CONFIRM_EMAIL, "a" * 64, EXPIRES)
        db.commit()

        assert repo.consume(code) is True
        assert repo.consume(code) is False
        assert repo.find(user.id, CodeKind.CONFIRM_EMAIL) is None

    def test_concurrent_consumers_only_one_wins(self, session_maker, make_user):
        user = make_user()
        setup = session_maker()
        CodeRepository(setup).replace(user.id, CodeKind.CONFIRM_EMAIL, "a" * 64, EXPIRES)
        setup.commit()
        setup.close()

        first, second = session_maker(), session_maker()
        first_code = CodeRepository(first).find(user.id, CodeKind.CONFIRM_EMAIL)
        second_code = CodeRepository(second).find(user.id, CodeKind.CONFIRM_EMAIL)

        first_won = CodeRepository(first).consume(first_code)
        first.commit()
        second_won = CodeRepository(second).consume(second_code)
        second.commit()
        first.close()
        second.close()

        assert (first_won, second_won) == (True, False)

    def test_delete_for_user(self, db, make_user):
        user = make_user()
        repo = CodeRepository(db)
        repo.replace(user.id, CodeKind.CONFIRM_EMAIL, "a" * 64, EXPIRES)
        repo.replace(user.id, CodeKind.RESET_PASSWORD, "b" * 64, EXPIRES)

        assert repo.delete_for_user(user.id, CodeKind.CONFIRM_EMAIL) == 1
        assert repo.delete_for_user(user.id) == 1


class TestTokenRepository:
    """Test cases for refresh and login tokens."""

    def _add(self, repo, user_id, token_hash, family_id="family-1", kind=TokenKind.REFRESH):
        return repo.add(user_id, kind, token_hash, family_id, EXPIRES)

    def test_find_by_hash_checks_kind(self, db, make_user):
        user = make_user()
        repo = TokenRepository(db)
        self._add(repo, user.id, "a" * 64, kind=TokenKind.LOGIN)

        assert repo.find_by_hash("a" * 64, TokenKind.LOGIN) is not None
        assert repo.find_by_hash("a" * 64, TokenKind.REFRESH) is None

    def test_mark_used_succeeds_once(self, db, make_user):
        user = make_user()
        repo = TokenRepository(db)
        token = self._add(repo, user.id, "a" * 64)
        db.commit()

        assert repo.mark_used(token) is True
        assert repo.mark_used(token) is False
        assert token.used is True

    def test_delete_family_leaves_other_families(self, db, make_user):
        user = make_user()
        repo = TokenRepository(db)
        self._add(repo, user.id, "a" * 64, family_id="laptop")
        self._add(repo, user.id, "b" * 64, family_id="laptop")
        self._add(repo, user.id, "c" * 64, family_id="phone")

        assert repo.delete_family("laptop") == 2
        assert repo.count_for_user(user.id) == 1

    def test_delete_for_user_by_kind(self, db, make_user):
        user = make_user()
        repo = TokenRepository(db)
        self._add(repo, user.id, "a" * 64)
        self._add(repo, user.id, "b" * 64, kind=TokenKind.LOGIN)

        assert repo.delete_for_user(user.id, TokenKind.LOGIN) == 1
        assert repo.count_for_user(user.id) == 1
