def messages(sio_client):
    return [pkt['args'] for pkt in sio_client.get_received() if pkt['name'] == 'message']


def test_index_page(client):
    res = client.get('/')
    assert res.status_code == 200
    assert b'Vehicle Soccer' in res.data


def test_full_match(sio_factory, flask_app):
    alice = sio_factory()
    bob = sio_factory()
    assert alice.is_connected() and bob.is_connected()

    alice.send({'type': 'CREATE_SERVER', 'name': 'Alice'})
    (created,) = messages(alice)
    assert created['type'] == 'SERVER_CREATED'
    code, alice_id = created['serverId'], created['playerId']

    bob.send({'type': 'JOIN_SERVER', 'serverId': code, 'name': 'Bob'})
    joined, bob_update = messages(bob)
    assert joined['type'] == 'JOINED'
    assert joined['serverId'] == code and joined['isHost'] is False
    bob_id = joined['playerId']
    (alice_update,) = messages(alice)
    assert alice_update == bob_update
    assert len(alice_update['players']) == 2

    alice.send({'type': 'LAUNCH'})
    expected_players = [
        {'id': alice_id, 'name': 'Alice', 'team': 0},
        {'id': bob_id, 'name': 'Bob', 'team': 1},
    ]
    for sio_client in (alice, bob):
        (start,) = messages(sio_client)
        assert start['type'] == 'GAME_START'
        assert start['players'] == expected_players

    alice.send({'type': 'GOAL', 'team': 0})
    for sio_client in (alice, bob):
        assert messages(sio_client) == [{'type': 'GOAL', 'team': 0, 'scoreA': 1, 'scoreB': 0}]

    alice.send({'type': 'GAME_OVER'})
    for sio_client in (alice, bob):
        assert messages(sio_client) == [{'type': 'GAME_OVER', 'scoreA': 1, 'scoreB': 0}]

    registry = flask_app.extensions['relay']['registry']
    assert registry.lookup(code) is None


def test_join_unknown_room(sio_factory, flask_app):
    carol = sio_factory()
    carol.send({'type': 'JOIN_SERVER', 'serverId': 'ZZZZZZ', 'name': 'Carol'})
    assert messages(carol) == [{'type': 'ERROR', 'msg': 'Serveur introuvable'}]
    assert len(flask_app.extensions['relay']['registry']) == 0


def test_json_text_and_garbage(sio_factory):
    alice = sio_factory()
    alice.send('{not json')
    assert messages(alice) == []
    alice.send('{"type": "CREATE_SERVER", "name": "Alice"}')
    assert [m['type'] for m in messages(alice)] == ['SERVER_CREATED']
    assert alice.is_connected()


def test_host_disconnect_hands_over(sio_factory, flask_app):
    alice, bob, carol = sio_factory(), sio_factory(), sio_factory()
    alice.send({'type': 'CREATE_SERVER', 'name': 'Alice'})
    code = messages(alice)[0]['serverId']
    bob.send({'type': 'JOIN_SERVER', 'serverId': code, 'name': 'Bob'})
    carol.send({'type': 'JOIN_SERVER', 'serverId': code, 'name': 'Carol'})
    messages(bob)
    messages(carol)

    alice.disconnect()

    bob_msgs = messages(bob)
    assert [m['type'] for m in bob_msgs] == ['YOU_ARE_HOST', 'ROOM_UPDATE']
    assert [m['type'] for m in messages(carol)] == ['ROOM_UPDATE']
    assert [p['name'] for p in bob_msgs[1]['players']] == ['Bob', 'Carol']

    room = flask_app.extensions['relay']['registry'].lookup(code)
    assert room.host.name == 'Bob'
    assert len(room) == 2


def test_last_disconnect_removes_room(sio_factory, flask_app):
    alice = sio_factory()
    alice.send({'type': 'CREATE_SERVER', 'name': 'Alice'})
    code = messages(alice)[0]['serverId']
    alice.disconnect()
    assert flask_app.extensions['relay']['registry'].lookup(code) is None


def test_events_from_one_socket_run_in_order(flask_app):
    from server import socketio
    assert socketio.server.async_handlers is False


def test_template_folder_from_config(tmp_path):
    from conftest import TestConfig
    from server import create_app

    (tmp_path / 'index.html').write_text('<h1>Installed client</h1>')

    class InstalledConfig(TestConfig):
        TEMPLATE_FOLDER = str(tmp_path)

    res = create_app(InstalledConfig).test_client().get('/')
    assert res.status_code == 200
    assert b'Installed client' in res.data
