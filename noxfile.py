import nox.sessions

PYTHON_VERSIONS = ['3.8', '3.9', '3.10', '3.11', '3.12']
PYDANTIC_VERSIONS = ['2.0', '2.5', '2.8']


nox.options.reuse_existing_virtualenvs = True
nox.options.sessions = [
    'tests',
    'tests_pydantic',
]


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.sessions.Session, pydantic=None):
    """ Run all tests """
    session.install('-e', '.[test]')

    # Specific package versions
    if pydantic:
        session.install(f'pydantic=={pydantic}.*')

    # Test
    session.run('pytest', 'tests/', '--cov=mongomem')


@nox.session(python=PYTHON_VERSIONS[-1])
@nox.parametrize('pydantic', PYDANTIC_VERSIONS)
def tests_pydantic(session: nox.sessions.Session, pydantic):
    """ Test against a specific pydantic version """
    tests(session, pydantic)
