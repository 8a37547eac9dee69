# Randomised-but-valid user fixtures. One fresh user per scenario keeps runs isolated.
from __future__ import annotations

from typing import Optional, Set

from faker import Faker

from acceptance_bench.bench.types import Role, TestUser

USERNAME_PREFIX = "user_"
USERNAME_DIGITS = 8
PHONE_PREFIX = "3"
PHONE_DIGITS = 9
PASSWORD_BASE = "Passw0rd*"
PASSWORD_DIGITS = 3


class DataGenerator:
    # Usernames handed out by any generator in this process.
    _issued: Set[str] = set()

    def __init__(self, seed: Optional[int] = None) -> None:
        self.faker = Faker()
        if seed is not None:
            self.faker.seed_instance(seed)

    def new_user(self, role: Role = Role.USER) -> TestUser:
        return TestUser(
            username=self._unique_username(),
            email=self.faker.email(),
            phone=PHONE_PREFIX + self._digits(PHONE_DIGITS),
            password=PASSWORD_BASE + self._digits(PASSWORD_DIGITS),
            first_name=self.faker.first_name(),
            last_name=self.faker.last_name(),
            role=role,
        )

    def _unique_username(self) -> str:
        while True:
            candidate = USERNAME_PREFIX + self._digits(USERNAME_DIGITS)
            if candidate not in DataGenerator._issued:
                DataGenerator._issued.add(candidate)
                return candidate

    def _digits(self, n: int) -> str:
        return "".join(str(self.faker.random_digit()) for _ in range(n))
