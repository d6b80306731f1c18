NULL = '\x00'
NEWLINE = '\n'


class Stomp:
    V1_0 = '1.0'
    V1_1 = '1.1'
    V1_2 = '1.2'

    SUPPORTED_VERSIONS = '1.0,1.1,1.2'
    SUBPROTOCOLS = ('v10.stomp', 'v11.stomp', 'v12.stomp')


class Commands:
    CONNECT = 'CONNECT'
    SEND = 'SEND'
    DISCONNECT = 'DISCONNECT'
    SUBSCRIBE = 'SUBSCRIBE'
    UNSUBSCRIBE = 'UNSUBSCRIBE'
    BEGIN = 'BEGIN'
    COMMIT = 'COMMIT'
    ABORT = 'ABORT'
    ACK = 'ACK'

    # Version 1.1
    NACK = 'NACK'


class Responses:
    CONNECTED = 'CONNECTED'
    ERROR = 'ERROR'
    MESSAGE = 'MESSAGE'
    RECEIPT = 'RECEIPT'


class Headers:
    CONTENT_LENGTH = 'content-length'
    DESTINATION = 'destination'
    TRANSACTION = 'transaction'
    RECEIPT = 'receipt'
    RECEIPT_ID = 'receipt-id'
    ID = 'id'
    SUBSCRIPTION = 'subscription'
    MESSAGE_ID = 'message-id'
    MESSAGE = 'message'

    class Connect:
        LOGIN = 'login'
        PASSCODE = 'passcode'
        CLIENT_ID = 'client-id'
        ACCEPT_VERSION = 'accept-version'
        HOST = 'host'
        HEART_BEAT = 'heart-beat'

    class Connected:
        VERSION = 'version'
        SERVER = 'server'
        SESSION = 'session'
        HEART_BEAT = 'heart-beat'
