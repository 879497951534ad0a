import mros
import time

from mros.registry import PUBLISHER, SUBSCRIBER


def wait_for(condition, timeout=5):

    deadline = time.time() + timeout

    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.01)

    return condition()


def test_fifo_publisher_first(start_node):

    talker = start_node('/talker')
    listener = start_node('/listener')

    publisher = talker.new_publisher('/chatter', 'std_msgs/String')
    subscriber = listener.new_subscriber('/chatter', 'std_msgs/String')

    received = list()
    subscriber.add_message_listener(received.append)

    assert publisher.wait_for_subscribers(1, 5) == True
    assert publisher.subscriber_count == 1

    count = 100
    for number in range(count):
        publisher.publish({'data': "message %d" % (number)})

    assert wait_for(lambda: len(received) == count) == True

    expected = [{'data': "message %d" % (number)} for number in range(count)]
    assert received == expected


def test_subscriber_first(start_node):

    # The subscriber only hears about this publisher by way of the
    # announcement sent when the publisher starts.

    listener = start_node('/listener')
    talker = start_node('/talker')

    subscriber = listener.new_subscriber('/chatter', 'std_msgs/String')
    assert subscriber.publisher_count == 0

    publisher = talker.new_publisher('/chatter', 'std_msgs/String')
    assert subscriber.publisher_count == 1

    received = list()
    subscriber.add_message_listener(received.append)

    assert publisher.wait_for_subscribers(1, 5) == True
    publisher.publish({'data': 'hello'})

    assert wait_for(lambda: len(received) == 1) == True
    assert received == [{'data': 'hello'}]


def test_registrations(start_node, registry):

    talker = start_node('/demo/talker')
    listener = start_node('/demo/listener')

    # Relative names are placed in the namespace of the node.

    publisher = talker.new_publisher('chatter')
    subscriber = listener.new_subscriber('/demo/chatter')

    assert publisher.name == '/demo/chatter'

    found = registry.lookup('/demo/chatter', PUBLISHER)
    assert len(found) == 1
    assert found[0].node == '/demo/talker'
    assert found[0].port == talker.endpoint.publish_port

    found = registry.lookup('/demo/chatter', SUBSCRIBER)
    assert len(found) == 1
    assert found[0].node == '/demo/listener'
    assert found[0].port == listener.endpoint.request_port

    subscriber.shutdown()
    assert registry.lookup('/demo/chatter', SUBSCRIBER) == []

    publisher.shutdown()
    assert registry.lookup('/demo/chatter', PUBLISHER) == []


def test_publisher_shutdown_announced(start_node):

    talker = start_node('/talker')
    listener = start_node('/listener')

    publisher = talker.new_publisher('/chatter')
    subscriber = listener.new_subscriber('/chatter')

    assert subscriber.publisher_count == 1

    publisher.shutdown()
    assert subscriber.publisher_count == 0


def test_multiple_publishers(start_node):

    first = start_node('/first')
    second = start_node('/second')
    listener = start_node('/listener')

    one = first.new_publisher('/chatter')
    two = second.new_publisher('/chatter')
    subscriber = listener.new_subscriber('/chatter')

    received = list()
    subscriber.add_message_listener(received.append)

    assert subscriber.publisher_count == 2
    assert one.wait_for_subscribers(1, 5) == True
    assert two.wait_for_subscribers(1, 5) == True

    one.publish('one')
    two.publish('two')

    assert wait_for(lambda: len(received) == 2) == True
    assert sorted(received) == ['one', 'two']


def test_overtaken_announcement(start_node, registry):

    first = start_node('/first')
    second = start_node('/second')
    listener = start_node('/listener')

    subscriber = listener.new_subscriber('/chatter')

    one = first.new_publisher('/chatter')
    stale = registry.lookup('/chatter', PUBLISHER)
    two = second.new_publisher('/chatter')

    assert subscriber.publisher_count == 2

    # The announcement made when the first publisher started arrives after
    # the one made by the second; both publishers are still registered.

    subscriber.update(stale)
    assert subscriber.publisher_count == 2

    received = list()
    subscriber.add_message_listener(received.append)

    assert two.wait_for_subscribers(1, 5) == True
    two.publish('two')

    assert wait_for(lambda: received == ['two']) == True

    # A publisher the registry no longer lists is dropped.

    registry.deregister('/chatter', PUBLISHER, '/first')
    subscriber.update(registry.lookup('/chatter', PUBLISHER))
    assert subscriber.publisher_count == 1


def test_type_mismatch(start_node, collector):

    talker = start_node('/talker')
    listener = start_node('/listener', collector)

    publisher = talker.new_publisher('/chatter', 'std_msgs/String')
    subscriber = listener.new_subscriber('/chatter', 'std_msgs/Int32')

    assert subscriber.publisher_count == 0
    assert publisher.wait_for_subscribers(1, 0.5) == False

    mismatches = [message for message in collector.errors if 'std_msgs/Int32' in message]
    assert len(mismatches) > 0


def test_listener_failure(start_node, collector):

    talker = start_node('/talker')
    listener = start_node('/listener', collector)

    publisher = talker.new_publisher('/chatter')
    subscriber = listener.new_subscriber('/chatter')

    def broken(message):
        raise ZeroDivisionError('kaboom')

    received = list()
    subscriber.add_message_listener(broken)
    subscriber.add_message_listener(received.append)

    assert publisher.wait_for_subscribers(1, 5) == True
    publisher.publish('first')
    publisher.publish('second')

    assert wait_for(lambda: len(received) == 2) == True
    assert received == ['first', 'second']

    failures = [message for message in collector.errors if 'ZeroDivisionError' in message]
    assert len(failures) == 2

    subscriber.remove_message_listener(broken)
    publisher.publish('third')

    assert wait_for(lambda: len(received) == 3) == True
    assert len([message for message in collector.errors if 'ZeroDivisionError' in message]) == 2


def test_compatible():

    assert mros.topic.compatible('*', 'std_msgs/String') == True
    assert mros.topic.compatible('std_msgs/String', '*') == True
    assert mros.topic.compatible('std_msgs/String', 'std_msgs/String') == True
    assert mros.topic.compatible('std_msgs/String', 'std_msgs/Int32') == False


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
