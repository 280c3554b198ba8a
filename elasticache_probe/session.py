"""
Synthetic session records written to the cluster by the probe.

Values are random but realistic enough that the hash looks like something a
web application would store for a logged-in user.
"""
import random
import uuid
from dataclasses import dataclass, asdict
from typing import Dict

SESSION_KEY = 'session_'

FIRST_NAMES = ['Ada', 'Grace', 'Alan', 'Edsger', 'Barbara', 'Donald', 'Margaret',
               'Ken', 'Frances', 'Dennis', 'Radia', 'Linus', 'Hedy', 'John']
LAST_NAMES = ['Lovelace', 'Hopper', 'Turing', 'Dijkstra', 'Liskov', 'Knuth',
              'Hamilton', 'Thompson', 'Allen', 'Ritchie', 'Perlman', 'Torvalds']
EMAIL_DOMAINS = ['example.com', 'example.net', 'example.org', 'mail.test']
COMPANY_WORDS = ['Acme', 'Globex', 'Initech', 'Umbrella', 'Stark', 'Wayne',
                 'Hooli', 'Vandelay', 'Soylent', 'Tyrell']
COMPANY_SUFFIXES = ['Inc', 'LLC', 'Group', 'and Sons', 'Holdings', 'Labs']
JOB_TITLES = ['Software Engineer', 'Data Analyst', 'Product Manager',
              'Site Reliability Engineer', 'Account Executive', 'UX Designer',
              'Database Administrator', 'Technical Writer', 'Support Specialist']


def new_session_id():
    """Key for one invocation's record, unique per call."""
    return f'{SESSION_KEY}:{uuid.uuid4()}'


@dataclass
class SessionRecord:
    """Fixed-shape record stored as a Redis hash."""
    name: str
    email: str
    ip_address: str
    company: str
    job: str

    @classmethod
    def generate(cls, rng=random):
        first = rng.choice(FIRST_NAMES)
        last = rng.choice(LAST_NAMES)
        email = f'{first.lower()}.{last.lower()}{rng.randint(1, 999)}@{rng.choice(EMAIL_DOMAINS)}'
        ip_address = '.'.join(str(rng.randint(1, 254)) for _ in range(4))
        company = f'{rng.choice(COMPANY_WORDS)} {rng.choice(COMPANY_SUFFIXES)}'

        return cls(
            name=f'{first} {last}',
            email=email,
            ip_address=ip_address,
            company=company,
            job=rng.choice(JOB_TITLES),
        )

    def to_mapping(self) -> Dict[str, str]:
        return asdict(self)
